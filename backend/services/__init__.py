# Clients for the external question generation and scoring API

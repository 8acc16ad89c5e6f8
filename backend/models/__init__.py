# Schemas for the mock interview backend

# Speech-to-text for spoken answers

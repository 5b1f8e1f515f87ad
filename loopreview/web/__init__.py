# Presentation Layer - FastAPI JSON API

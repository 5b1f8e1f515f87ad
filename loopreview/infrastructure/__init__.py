# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - config/:      Environment and settings management
# - persistence/: SQLite repositories (records and the automation job queue)
# - messaging/:   SMTP email and Twilio SMS senders
#
# This layer can be replaced entirely without affecting domain/application layers.

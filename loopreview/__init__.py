# Loop Review - Review Follow-up Automation
# ==========================================
# Schedules and delivers email/SMS follow-ups after customer events
# (a review submitted, a customer created, a template saved).
#
# ARCHITECTURE LAYERS:
# - Presentation:   FastAPI admin API (web/) and the cron runner
# - Application:    Scheduling and dispatch orchestration
# - Domain:         Pure business rules (timing, personalization, triggers)
# - Infrastructure: External services (SQLite, SMTP, SMS gateway, settings)
#
# Infrastructure pieces are injected, so a transport or store can be
# swapped without touching the domain or application layers.

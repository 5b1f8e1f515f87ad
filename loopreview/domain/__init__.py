# Domain Layer
# ============
# Pure business rules with no I/O:
# - models.py:          jobs, templates, reviews, customers
# - schedule.py:        trigger type -> fire time
# - personalization.py: placeholder rendering and trackable URLs
# - triggers.py:        which channels a review/customer event is owed
# - errors.py:          exception taxonomy shared by every layer

"""
Scheduled background work.

- **unmute_scheduler.py**: Removes the mute role once a role-mode mute
  expires. Uses a min-heap with job replacement and cancellation.

- **decay_scheduler.py**: Periodically marks decayed infractions inactive.
"""

"""DailyHelper backend package: notes and to-do tasks behind JWT auth.

The FastAPI app is exposed at dailyhelper.main:app (factory: create_app).
"""

__all__ = []

"""API Routers package."""
from . import auth, schedule, dashboard, bonus, master_data, training, audit, events

__all__ = ['auth', 'schedule', 'dashboard', 'bonus', 'master_data', 'training', 'audit', 'events']

"""
IncidentWatch
Citizen incident reporting: resumable media upload pipeline and live moderation feed.
"""

__version__ = "0.1.0"

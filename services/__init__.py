"""
Services Package

Collaborators of the connection state machine:
- event_hub.py: Publishes connection events to external subscribers
- liveness_monitor.py: Detects silent connections and requests a reconnect
"""

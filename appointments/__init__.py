"""Appointment booking relay.

Bridges a chat front end to a slow, job-based booking API and streams the
job's progress back to the browser over server-sent events.
"""

"""Dispatch of notifications in ``sending``.

The orchestrator consults the certification policy, calls the trusted
timestamp authority and the delivery channels, and reports the outcome
back to the state machine.  Collaborators are reached through the small
client contracts in ``timestamp_client`` and ``channels``.
"""

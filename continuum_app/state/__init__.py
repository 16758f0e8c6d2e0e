"""
Period lifecycle state machine module.

Builds the periods produced by each transition (bootstrap, end-and-start,
pause, resume, recovery) and checks every plan before it is committed.
"""

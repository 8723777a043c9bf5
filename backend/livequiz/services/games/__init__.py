"""Live game domain services: answer evaluation, session store, engine.

This package contains the game mechanics that HTTP routes and socket
handlers call into, keeping transport concerns separated from the state
machine itself.
"""

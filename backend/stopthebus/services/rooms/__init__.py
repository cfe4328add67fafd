"""Room lifecycle: codes, the room state machine, the store, write-behind
snapshots, broadcasting and timers.

The engine never touches sockets or the database directly; it mutates rooms
through the store and returns events for the hub to publish.
"""

"""notify/ -- Email rendering and delivery for link token actions.

Layer rule: notify/ imports only core/ and third-party libraries. It never
persists anything; it renders a message and hands it to a transport.
"""

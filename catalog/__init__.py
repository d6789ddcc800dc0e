"""catalog/ -- Traffic models, their ownership, and uploaded assets.

Layer rule: catalog/ imports only core/ and third-party libraries. It does
NOT import from auth/, notify/, workflows/, or api/.
"""

"""
auth/ -- Identity, credentials and link tokens for mobiHub.

Layer rule: auth/ imports only core/ + stdlib + third-party libraries.
It does NOT import from api/, catalog/, notify/, or workflows/.
api/ and workflows/ import from auth/, not the other way around.
"""

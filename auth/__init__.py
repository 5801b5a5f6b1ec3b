"""auth/ -- Authentication and authorization package for Proposal Tracker.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/, web/, tracker/, or client/.
api/ and web/ import from auth/, not the other way around.
"""

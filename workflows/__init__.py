"""workflows/ -- Request-level orchestration of the link token actions.

Each workflow chains credential validation, LinkTokenEngine.issue() and
NotificationDispatcher.send(), or LinkTokenEngine.consume() with the domain
effect applied inside the consume transaction.

Layer rule: workflows/ may import auth/, catalog/, notify/ and core/, but
never api/. api/ imports workflows/, not the other way around.
"""

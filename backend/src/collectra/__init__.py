"""Collectra - a headless-CMS request engine.

Collections declared in YAML or Python become CRUD endpoints. Every
request runs through plugin transforms, four hook phases and an access
gate before the persistence call, then webhooks fan out.
"""

__version__ = "0.3.0"

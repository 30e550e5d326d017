"""Business logic layer. Services own every ``db.session.commit()``."""

"""Services package: rate limiting, auth tokens, category storage, reconciliation and the classification facade."""

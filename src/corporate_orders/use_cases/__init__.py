"""Use-case level logic.

These modules implement the daily ordering rules (cutoff, replace vs. add,
aggregation, approval, payment choice) on top of the backend client.

They should be:
- deterministic given `now` and the fetched data
- unit-testable with stub clients
- free of web/framework code
"""

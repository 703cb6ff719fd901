"""
Reporting subsystem.

Reports are computed from a single read of the orders in a date range;
see ``engine`` for the views and ``service`` for range handling.
"""

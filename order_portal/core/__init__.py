"""
Core package for shared configuration, logging and time helpers.
"""

"""
Shared configuration, logging and validation helpers.
"""

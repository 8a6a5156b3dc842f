"""
Relay caching package.

Source documents are held in process memory only and lost on restart.
"""

"""
Interactive runtime: expression sandbox, conditions, execution context and store.
"""

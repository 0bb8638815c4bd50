"""
Administration modules (accounts, activities, system configuration, reporting).
"""

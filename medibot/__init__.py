"""
MediBot medication reminder service package
"""

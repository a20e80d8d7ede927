"""
Core building blocks shared by every Gatehouse app.
"""

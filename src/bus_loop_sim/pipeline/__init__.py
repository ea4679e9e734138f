"""
Pipeline orchestration for configuring, running and exporting simulations.
"""

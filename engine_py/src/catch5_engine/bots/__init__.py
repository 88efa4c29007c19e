"""
Seat automation: the CPU player and the default actions for timed-out humans.
"""

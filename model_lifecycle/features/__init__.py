"""Feature shaping for model training.

Modules
-------
daily_agg — collapse raw tenant records into one summed value per day
"""

"""Layout comparison, stability calibration and threshold validators."""

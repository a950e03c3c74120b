"""One adapter per input dialect."""

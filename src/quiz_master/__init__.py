"""Quiz Master: study text to multiple-choice quizzes with per-subject progress."""
__version__ = "0.1.0"

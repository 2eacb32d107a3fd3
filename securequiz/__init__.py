"""
SecureQuiz - secure exam proctoring core

Gates entry into a timed assessment, corroborates platform signals into
confirmed violations and escalates them to a single forced submission.
"""

__version__ = "1.0.0"

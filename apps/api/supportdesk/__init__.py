"""Support ticket conversation engine."""

"""Folder create manager: the poll loop and its CLI controllers."""

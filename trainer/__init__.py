"""Trainer package initializer.

The computational core lives in ``trainer.engine``; this file does not
expose any functionality itself.
"""

"""Core domain logic for offline-first physical-therapy records.

This package contains the clinical models and services, isolated from any
UI or storage technology for easy testing and reasoning.
"""

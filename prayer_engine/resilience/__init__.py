"""Resilience helpers"""

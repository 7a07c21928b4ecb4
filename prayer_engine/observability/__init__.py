"""Metrics for the prayer engine"""

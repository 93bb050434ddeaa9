"""
dashboard_sync.sync - Synchronization core

Record model, retry policy, batch executor and reconciliation engine.
"""

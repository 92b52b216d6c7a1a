"""Stock Ledger API"""

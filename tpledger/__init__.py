"""
tpledger — Section 94B interest-limitation engine and carry-forward ledger.

    from tpledger.thin_cap import ThinCapEngine, project_forward
"""

"""
Pure pipeline stages for the appointment dashboard.

scope -> normalize -> filter -> {aggregate, bucketize, breakdown}
"""

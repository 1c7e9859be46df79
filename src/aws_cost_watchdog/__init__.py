"""
AWS Cost Watchdog - red-flag detection and cost forecasting for AWS deployments.

A small analytical core for:
- Statistical cost anomaly detection against historical weekly spend
- Idle and wasted resource detection from CloudWatch utilization
- Security misconfiguration and failed deployment checks
- Trend-based weekly and monthly cost forecasts with confidence intervals
"""

__version__ = "0.1.0"

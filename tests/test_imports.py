"""
Smoke test: the public entry points import cleanly.
"""


def test_package_imports():
    import autoguardian
    from autoguardian.api import create_app
    from autoguardian.billing import BillingService
    from autoguardian.sdk import InferenceClient

    assert autoguardian.__version__
    assert callable(create_app)
    assert BillingService is not None
    assert InferenceClient is not None

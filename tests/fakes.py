"""Stand-ins for Stripe and Clerk SDK objects."""
from types import SimpleNamespace


class StripeObject(dict):
    """Dict with attribute access, like the SDK's StripeObject."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as e:
            raise AttributeError(name) from e


def stripe_obj(**fields):
    return StripeObject(fields)


def make_clerk_user(
    user_id="user_123",
    email="jane@example.com",
    first_name="Jane",
    last_name="Doe",
    public_metadata=None,
    private_metadata=None,
):
    return SimpleNamespace(
        id=user_id,
        first_name=first_name,
        last_name=last_name,
        email_addresses=[SimpleNamespace(id="idn_1", email_address=email)],
        primary_email_address_id="idn_1",
        public_metadata=public_metadata or {},
        private_metadata=private_metadata or {},
    )


def stripe_event(event_type, obj, event_id="evt_test_1"):
    return StripeObject(id=event_id, type=event_type, data=StripeObject(object=obj))

from decimal import Decimal

import factory
from django.contrib.auth import get_user_model
from orders.models import Order


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()
        django_get_or_create = ("username",)

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "pass1234")


class StaffUserFactory(UserFactory):
    is_staff = True


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Order

    email = factory.Sequence(lambda n: f"buyer{n}@example.com")
    status = Order.STATUS_PENDING
    total = Decimal("100.00")
    currency = "USD"
    billing = factory.LazyFunction(
        lambda: {
            "phone": "+66800000000",
            "country": "TH",
            "city": "Bangkok",
            "state": "BKK",
            "address": "1 Sukhumvit Rd",
            "zip": "10110",
        }
    )
    metadata = factory.LazyFunction(dict)

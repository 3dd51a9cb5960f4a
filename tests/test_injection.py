import unittest
from dataclasses import dataclass
from typing import Annotated, Protocol
from unittest.mock import MagicMock

from iocbind import Container, Inject, InjectableField, Resolver, injectable_fields


class Logger:
    def info(self, msg):
        pass


class Cache:
    pass


class Client:
    logger: Annotated[Logger, Inject()]
    cache: Annotated[Cache, Inject]
    disabled: Annotated[Cache, Inject(False)]
    plain: Logger
    resolver: Resolver
    _hidden: Annotated[Logger, Inject()]

    def __init__(self):
        self.logger = None
        self.cache = None
        self.disabled = None
        self.plain = None
        self.resolver = None
        self._hidden = None


class TestInjectableFields(unittest.TestCase):
    def test_only_marked_public_fields_and_resolver_are_eligible(self):
        fields = injectable_fields(Client)
        assert fields == (
            InjectableField("logger", Logger),
            InjectableField("cache", Cache),
            InjectableField("resolver", Resolver),
        )

    def test_fields_are_computed_once_per_class(self):
        assert injectable_fields(Client) is injectable_fields(Client)

    def test_inherited_annotations_are_included(self):
        class Derived(Client):
            extra: Annotated[Cache, Inject()]

        names = {f.name for f in injectable_fields(Derived)}
        assert names == {"logger", "cache", "resolver", "extra"}

    def test_class_without_annotations_has_no_fields(self):
        class Bare: ...

        assert injectable_fields(Bare) == ()

    def test_dataclass_fields_can_be_marked(self):
        @dataclass
        class Settings:
            logger: Annotated[Logger, Inject()] = None
            name: str = "x"

        assert injectable_fields(Settings) == (InjectableField("logger", Logger),)

    def test_unresolvable_forward_reference_skips_only_that_field(self):
        class Broken:
            thing: "Annotated[DoesNotExist, Inject()]"  # noqa: F821
            logger: "Annotated[Logger, Inject()]"
            resolver: Resolver

        with self.assertLogs("iocbind._injection", level="WARNING"):
            fields = injectable_fields(Broken)

        assert fields == (
            InjectableField("logger", Logger),
            InjectableField("resolver", Resolver),
        )

    def test_resolver_field_is_eligible_whatever_its_marker(self):
        class Holder:
            resolver: Annotated[Resolver, Inject(False)]

        assert injectable_fields(Holder) == (InjectableField("resolver", Resolver),)


class TestFieldInjection(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.logger = Logger()
        self.cache = Cache()

    def test_marked_fields_are_filled(self):
        self.cont.add_singleton(Logger, self.logger)
        self.cont.add_singleton(Cache, self.cache)
        client = Client()

        self.cont.inject(client)

        assert client.logger is self.logger
        assert client.cache is self.cache
        assert client.resolver is self.cont

    def test_unmarked_disabled_and_private_fields_are_left_alone(self):
        self.cont.add_singleton(Logger, self.logger)
        self.cont.add_singleton(Cache, self.cache)
        client = Client()

        self.cont.inject(client)

        assert client.plain is None
        assert client.disabled is None
        assert client._hidden is None

    def test_unresolvable_field_keeps_previous_value(self):
        client = Client()
        previous = Logger()
        client.logger = previous

        self.cont.inject(client)

        assert client.logger is previous
        assert client.cache is None
        assert client.resolver is self.cont

    def test_resolver_field_receives_enclosing_container(self):
        child = Container()
        child.set_parent(self.cont)
        client = Client()

        child.inject(client)

        assert client.resolver is child

    def test_fields_resolve_through_parent(self):
        self.cont.add_singleton(Logger, self.logger)
        child = Container()
        child.set_parent(self.cont)
        client = Client()

        child.inject(client)

        assert client.logger is self.logger

    def test_container_is_never_injected_into(self):
        other = Container()
        self.cont.inject(other)
        assert other.resolve(Resolver) is other

    def test_resolver_field_is_filled_despite_unresolvable_sibling(self):
        class Holder:
            thing: "DoesNotExist"  # noqa: F821
            resolver: Resolver

        holder = Holder()
        with self.assertLogs("iocbind._injection", level="WARNING"):
            self.cont.inject(holder)

        assert holder.resolver is self.cont

    def test_none_from_transient_factory_leaves_field_untouched(self):
        previous = Logger()
        self.cont.add_transient(Logger, lambda: None)
        client = Client()
        client.logger = previous

        self.cont.inject(client)

        assert client.logger is previous

    def test_none_class_and_builtin_targets_are_ignored(self):
        self.cont.inject(None)
        self.cont.inject(Client)
        self.cont.inject(42)
        self.cont.inject("text")


class TestFunctionInjection(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.logger = Logger()
        self.cont.add_singleton(Logger, self.logger)

    def test_parameters_are_resolved_by_annotation(self):
        received = {}

        def handler(logger: Logger, resolver: Resolver):
            received["logger"] = logger
            received["resolver"] = resolver

        self.cont.inject(handler)

        assert received == {"logger": self.logger, "resolver": self.cont}

    def test_unresolvable_parameter_gets_none(self):
        received = {}

        def handler(logger: Logger, cache: Cache):
            received["cache"] = cache

        self.cont.inject(handler)

        assert received == {"cache": None}

    def test_unresolvable_parameter_uses_its_default(self):
        fallback = Cache()
        received = {}

        def handler(cache: Cache = fallback):
            received["cache"] = cache

        self.cont.inject(handler)

        assert received["cache"] is fallback

    def test_unannotated_parameter_gets_none(self):
        received = {}

        def handler(anything, logger: Logger):
            received["anything"] = anything
            received["logger"] = logger

        self.cont.inject(handler)

        assert received == {"anything": None, "logger": self.logger}

    def test_none_from_transient_factory_falls_back_to_default(self):
        fallback = Cache()
        self.cont.add_transient(Cache, lambda: None)
        received = {}

        def handler(cache: Cache = fallback):
            received["cache"] = cache

        self.cont.inject(handler)

        assert received["cache"] is fallback

    def test_annotated_parameters_are_unwrapped(self):
        received = {}

        def handler(logger: Annotated[Logger, "primary"]):
            received["logger"] = logger

        self.cont.inject(handler)

        assert received["logger"] is self.logger

    def test_bound_method_is_injected(self):
        class Consumer:
            def __init__(self):
                self.logger = None

            def attach(self, logger: Logger):
                self.logger = logger

        consumer = Consumer()
        self.cont.inject(consumer.attach)

        assert consumer.logger is self.logger

    def test_variadic_parameters_are_skipped(self):
        received = {}

        def handler(logger: Logger, *args, key: Cache = None, **kwargs):
            received.update(logger=logger, args=args, key=key, kwargs=kwargs)

        self.cont.inject(handler)

        assert received == {"logger": self.logger, "args": (), "key": None, "kwargs": {}}

    def test_positional_only_and_keyword_only_parameters(self):
        received = {}

        def handler(logger: Logger, /, *, resolver: Resolver):
            received.update(logger=logger, resolver=resolver)

        self.cont.inject(handler)

        assert received == {"logger": self.logger, "resolver": self.cont}

    def test_return_value_is_discarded(self):
        def handler(logger: Logger):
            return logger

        assert self.cont.inject(handler) is None

    def test_exceptions_from_injected_function_propagate(self):
        def handler(logger: Logger):
            msg = "handler failed"
            raise RuntimeError(msg)

        with self.assertRaises(RuntimeError):
            self.cont.inject(handler)

    def test_transient_parameters_are_fresh_per_call(self):
        class Widget: ...

        self.cont.add_transient(Widget, Widget)
        seen = []

        def handler(widget: Widget):
            seen.append(widget)

        self.cont.inject(handler)
        self.cont.inject(handler)

        assert seen[0] is not seen[1]


class PaymentClient(Protocol):
    def charge(self, order_id: str, amount_cents: int) -> None: ...


class StripeSdk:
    def pay(self, amount_usd: float, reference: str) -> bool:
        return True


class StripeAdapter:
    sdk: Annotated[StripeSdk, Inject()]
    logger: Annotated[Logger, Inject()]

    def __init__(self, usd_per_cent: float = 0.01) -> None:
        self._usd_per_cent = usd_per_cent

    def charge(self, order_id: str, amount_cents: int) -> None:
        self.logger.info("adapting to stripe sdk api")
        ok = self.sdk.pay(amount_cents * self._usd_per_cent, reference=order_id)
        if not ok:
            msg = "Stripe payment failed"
            raise RuntimeError(msg)


class TestWiringAdapterThirdPartySDK(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.stripe_sdk = StripeSdk()
        self.stripe_sdk.pay = MagicMock(wraps=self.stripe_sdk.pay)
        self.logger = Logger()
        self.logger.info = MagicMock(wraps=self.logger.info)
        self.cont.add_singleton(StripeSdk, self.stripe_sdk)
        self.cont.add_singleton(Logger, self.logger)
        self.cont.add_singleton(PaymentClient, StripeAdapter(usd_per_cent=0.0125))

    def test_adapter_calls_adaptee(self):
        client = self.cont.resolve(PaymentClient)
        client.charge("order-123", 5000)

        assert self.stripe_sdk.pay.call_count == 1
        assert self.stripe_sdk.pay.call_args[0][0] == 0.0125 * 5000
        assert self.stripe_sdk.pay.call_args[1]["reference"] == "order-123"
        self.logger.info.assert_called_once_with("adapting to stripe sdk api")

"""Tests for struct binding."""

from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Annotated
from zoneinfo import ZoneInfo

import numpy as np
import pytest
from pydantic import AnyUrl, BaseModel, ConfigDict, Field
from pytest_mock import MockerFixture

from envbind.binder import gather, load, must_process, process
from envbind.environment import MappingEnvironment
from envbind.errors import InvalidSpecificationError, ParseError, RequiredFieldError
from envbind.tags import Env


class BasicConfig(BaseModel):
    string_field: Annotated[str, Env(key="TEST_STRING")] = ""
    int_field: Annotated[int, Env(key="TEST_INT")] = 0
    bool_field: Annotated[bool, Env(key="TEST_BOOL")] = False
    default_field: Annotated[str, Env(key="TEST_DEFAULT", default="default_value")] = ""
    ignored_field: Annotated[str, Env(key="TEST_IGNORED", ignored=True)] = "untouched"


class RequiredConfig(BaseModel):
    required_field: Annotated[str, Env(key="TEST_REQUIRED", required=True)] = ""


class RequiredWithDefaultConfig(BaseModel):
    port: Annotated[int, Env(required=True, default="8080")] = 0


class OrderedRequiredConfig(BaseModel):
    name: str = ""
    token: Annotated[str, Env(required=True)] = ""


class DatabaseConfig(BaseModel):
    host: Annotated[str, Env(key="HOST")] = ""
    port: Annotated[int, Env(key="PORT")] = 0
    password: Annotated[str, Env(key="PASSWORD")] = ""


class AppConfig(BaseModel):
    app_name: Annotated[str, Env(key="APP_NAME")] = ""
    database: Annotated[DatabaseConfig, Env(key="DB", nested=True)] = Field(
        default_factory=DatabaseConfig
    )


class ServerSection(BaseModel):
    host: str = ""
    port: int = 0


class ServiceConfig(BaseModel):
    debug: bool = False
    server: ServerSection = Field(default_factory=ServerSection)


class FrozenConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""


@dataclass
class OuterSection:
    inner_field: str = ""


@dataclass
class TwoLevel:
    outer: OuterSection = field(default_factory=OuterSection)


@dataclass
class MiddleSection:
    value: str = ""


@dataclass
class OuterWithMiddle:
    middle: MiddleSection = field(default_factory=MiddleSection)


@dataclass
class ThreeLevel:
    outer: OuterWithMiddle = field(default_factory=OuterWithMiddle)


class CustomType:
    def __init__(self) -> None:
        self.value = ""

    def env_decode(self, value: str) -> None:
        self.value = "decoded:" + value

    def env_set(self, value: str) -> None:
        self.value = "set:" + value


@dataclass
class ComplexConfig:
    custom_decoder: CustomType = field(default_factory=CustomType)
    slice_field: list[str] = field(default_factory=list)
    int_slice: list[int] = field(default_factory=list)
    map_field: dict[str, str] = field(default_factory=dict)
    duration: timedelta = timedelta(0)
    location: Annotated[ZoneInfo | None, Env(key="LOCATION")] = None
    url_field: Annotated[AnyUrl | None, Env(key="URLFIELD")] = None
    ptr_field: str | None = None
    small: np.int8 = np.int8(0)


@dataclass
class HostPort:
    host: str = ""
    port: int = 0

    def env_decode(self, value: str) -> None:
        host, _, port = value.partition(":")
        self.host = host
        self.port = int(port)


@dataclass
class Endpoints:
    primary: HostPort = field(default_factory=HostPort)
    secondary: Annotated[HostPort, Env(nested=True)] = field(default_factory=HostPort)


@dataclass
class OptionalNested:
    database: DatabaseConfig | None = None


@dataclass(frozen=True)
class FrozenSection:
    name: str = ""


@dataclass
class HasFrozenSection:
    section: FrozenSection = field(default_factory=FrozenSection)


@dataclass
class Node:
    name: str = ""
    child: "Node | None" = None


class BadNested(BaseModel):
    port: Annotated[int, Env(nested=True)] = 0


class RecordingEnvironment:
    """Environment that records every lookup."""

    case_sensitive = True

    def __init__(self, environ: dict[str, str]) -> None:
        self.environ = environ
        self.lookups: list[str] = []

    def lookup(self, name: str) -> tuple[str, bool]:
        self.lookups.append(name)
        if name in self.environ:
            return self.environ[name], True
        return "", False

    def items(self) -> Iterator[tuple[str, str]]:
        yield from self.environ.items()


class TestProcess:
    """Tests for process function."""

    def test_basic_string_field(self) -> None:
        """Test binding a string field."""
        config = BasicConfig()
        process("", config, environ={"TEST_STRING": "hello"})
        assert config.string_field == "hello"
        assert config.default_field == "default_value"

    def test_int_and_bool_fields(self) -> None:
        """Test binding int and bool fields."""
        config = BasicConfig()
        process("", config, environ={"TEST_INT": "42", "TEST_BOOL": "true"})
        assert config.int_field == 42
        assert config.bool_field is True

    def test_default_value(self) -> None:
        """Test that the default is used when no variable is set."""
        config = BasicConfig()
        process("", config, environ={})
        assert config.default_field == "default_value"

    def test_variable_overrides_default(self) -> None:
        """Test that a set variable beats the default."""
        config = BasicConfig()
        process("", config, environ={"TEST_DEFAULT": "custom"})
        assert config.default_field == "custom"

    def test_default_is_converted(self) -> None:
        """Test that textual defaults go through conversion."""
        config = RequiredWithDefaultConfig()
        process("", config, environ={})
        assert config.port == 8080

    def test_optional_missing_left_unchanged(self) -> None:
        """Test that missing optional fields keep their current value."""
        config = BasicConfig(string_field="preset", int_field=7)
        process("", config, environ={})
        assert config.string_field == "preset"
        assert config.int_field == 7

    def test_ignored_field(self) -> None:
        """Test that ignored fields are never bound."""
        config = BasicConfig()
        process("", config, environ={"TEST_IGNORED": "changed"})
        assert config.ignored_field == "untouched"

    def test_ignored_field_never_looked_up(self) -> None:
        """Test that ignored fields are never looked up."""
        env = RecordingEnvironment({})
        process("", BasicConfig(), environ=env)
        assert "TEST_IGNORED" not in env.lookups

    def test_with_prefix(self) -> None:
        """Test that the prefix joins with a single underscore."""
        config = BasicConfig()
        process("APP", config, environ={"APP_TEST_STRING": "prefixed"})
        assert config.string_field == "prefixed"

    def test_prefix_required(self) -> None:
        """Test that unprefixed variables are not read when a prefix is set."""
        config = BasicConfig()
        process("APP", config, environ={"TEST_STRING": "unprefixed"})
        assert config.string_field == ""

    def test_untagged_keys_derived_from_names(self) -> None:
        """Test derived keys for untagged fields."""
        config = ComplexConfig()
        process("", config, environ={"CUSTOM_DECODER": "test"})
        assert config.custom_decoder.value == "decoded:test"

    def test_complex_types(self) -> None:
        """Test collection, duration, zone, URL and fixed-width fields."""
        config = ComplexConfig()
        process(
            "",
            config,
            environ={
                "SLICE_FIELD": "a,b,c",
                "INT_SLICE": "1,2,3",
                "MAP_FIELD": "key1:val1,key2:val2",
                "DURATION": "5s",
                "LOCATION": "UTC",
                "URLFIELD": "https://example.com/path",
                "SMALL": "-5",
            },
        )
        assert config.slice_field == ["a", "b", "c"]
        assert config.int_slice == [1, 2, 3]
        assert config.map_field == {"key1": "val1", "key2": "val2"}
        assert config.duration == timedelta(seconds=5)
        assert config.location == ZoneInfo("UTC")
        assert config.url_field is not None
        assert config.url_field.host == "example.com"
        assert config.small == np.int8(-5)

    def test_pointer_field(self) -> None:
        """Test that optional fields are assigned on success."""
        config = ComplexConfig()
        process("", config, environ={"PTR_FIELD": "pointer"})
        assert config.ptr_field == "pointer"

    def test_pointer_field_absent(self) -> None:
        """Test that optional fields stay None when unset."""
        config = ComplexConfig()
        process("", config, environ={})
        assert config.ptr_field is None

    def test_case_insensitive_environment(self) -> None:
        """Test binding from a case-insensitive store."""
        config = AppConfig()
        env = MappingEnvironment({"fin_app_name": "myapp"}, case_sensitive=False)
        process("FIN", config, environ=env)
        assert config.app_name == "myapp"

    def test_reads_process_environment(self, clean_env: pytest.MonkeyPatch) -> None:
        """Test the default environment source."""
        clean_env.setenv("APP_TEST_STRING", "from-os")
        config = BasicConfig()
        process("APP", config)
        assert config.string_field == "from-os"


class TestNestedStructures:
    """Tests for nested structure binding."""

    def test_tagged_nested_with_prefix(self) -> None:
        """Test nested keys joined with the nesting separator."""
        config = AppConfig()
        process(
            "FIN",
            config,
            environ={
                "FIN_APP_NAME": "myapp",
                "FIN_DB__HOST": "localhost",
                "FIN_DB__PORT": "5432",
                "FIN_DB__PASSWORD": "secret",
            },
        )
        assert config.app_name == "myapp"
        assert config.database.host == "localhost"
        assert config.database.port == 5432
        assert config.database.password == "secret"

    def test_single_underscore_does_not_satisfy_nested(self) -> None:
        """Test that word separators are not structural separators."""
        config = AppConfig()
        process("FIN", config, environ={"FIN_DB_HOST": "localhost"})
        assert config.database.host == ""

    def test_untagged_struct_recurses(self) -> None:
        """Test that structure-typed fields recurse without a tag."""
        config = ServiceConfig()
        process(
            "APP",
            config,
            environ={"APP_DEBUG": "1", "APP_SERVER__HOST": "0.0.0.0", "APP_SERVER__PORT": "8080"},
        )
        assert config.debug is True
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 8080

    def test_two_level_key(self) -> None:
        """Test the canonical key of a two-level structure."""
        config = TwoLevel()
        process("", config, environ={"OUTER__INNER_FIELD": "value"})
        assert config.outer.inner_field == "value"

    def test_two_level_ignores_container_variable(self) -> None:
        """Test that a container's own variable does not change the result."""
        config = TwoLevel()
        process(
            "",
            config,
            environ={"OUTER__INNER_FIELD": "value", "OUTER": "container"},
        )
        assert config.outer.inner_field == "value"

    def test_truncated_variable_satisfies_deeper_key(self) -> None:
        """Test the nested fallback to a shorter key."""
        config = ThreeLevel()
        process("", config, environ={"OUTER__MIDDLE": "flattened"})
        assert config.outer.middle.value == "flattened"

    def test_exact_key_beats_truncated_variable(self) -> None:
        """Test that the exact key wins over the fallback."""
        config = ThreeLevel()
        process(
            "",
            config,
            environ={"OUTER__MIDDLE": "flattened", "OUTER__MIDDLE__VALUE": "exact"},
        )
        assert config.outer.middle.value == "exact"

    def test_optional_nested_allocated(self) -> None:
        """Test that a None nested structure gets a fresh instance."""
        config = OptionalNested()
        process("", config, environ={"DATABASE__HOST": "db.example.com"})
        assert config.database is not None
        assert config.database.host == "db.example.com"
        assert config.database.port == 0

    def test_optional_nested_not_attached_on_error(self) -> None:
        """Test that a failing subtree is not attached."""
        config = OptionalNested()
        with pytest.raises(ParseError):
            process("", config, environ={"DATABASE__PORT": "not-a-port"})
        assert config.database is None

    def test_capability_struct_is_leaf(self) -> None:
        """Test that a structure with a decoder is decoded, not walked."""
        config = Endpoints()
        process(
            "",
            config,
            environ={
                "PRIMARY": "db:5432",
                "SECONDARY__HOST": "replica",
                "SECONDARY__PORT": "5433",
            },
        )
        assert (config.primary.host, config.primary.port) == ("db", 5432)
        assert (config.secondary.host, config.secondary.port) == ("replica", 5433)

    def test_nested_flag_on_leaf_rejected(self) -> None:
        """Test that nested=True requires a structure type."""
        with pytest.raises(InvalidSpecificationError, match="not a structure"):
            process("", BadNested(), environ={})

    def test_frozen_nested_rejected(self) -> None:
        """Test that frozen nested structures are invalid."""
        with pytest.raises(InvalidSpecificationError, match="frozen"):
            process("", HasFrozenSection(), environ={})

    def test_recursive_structure_rejected(self) -> None:
        """Test that self-referencing structures are invalid."""
        with pytest.raises(InvalidSpecificationError, match="contains itself"):
            process("", Node(), environ={})


class TestErrors:
    """Tests for binding errors."""

    def test_required_missing(self) -> None:
        """Test required field error names the key."""
        with pytest.raises(RequiredFieldError) as exc_info:
            process("", RequiredConfig(), environ={})
        assert exc_info.value.key == "TEST_REQUIRED"
        assert exc_info.value.field_name == "required_field"
        assert "TEST_REQUIRED" in str(exc_info.value)

    def test_required_missing_with_prefix(self) -> None:
        """Test required key includes the prefix."""
        with pytest.raises(RequiredFieldError, match="APP_TEST_REQUIRED"):
            process("APP", RequiredConfig(), environ={})

    def test_required_present(self) -> None:
        """Test required field with a value."""
        config = RequiredConfig()
        process("", config, environ={"TEST_REQUIRED": "value"})
        assert config.required_field == "value"

    def test_required_satisfied_by_default(self) -> None:
        """Test that a default satisfies a required field."""
        config = RequiredWithDefaultConfig()
        process("", config, environ={})
        assert config.port == 8080

    def test_parse_error_context(self) -> None:
        """Test conversion error details."""
        with pytest.raises(ParseError) as exc_info:
            process("", BasicConfig(), environ={"TEST_INT": "abc"})
        err = exc_info.value
        assert err.key_name == "TEST_INT"
        assert err.field_name == "int_field"
        assert err.type_name == "int"
        assert err.value == "abc"
        assert isinstance(err.err, ValueError)
        assert err.__cause__ is err.err

    def test_empty_value_is_converted(self) -> None:
        """Test that an empty variable is present and must convert."""
        with pytest.raises(ParseError):
            process("", BasicConfig(), environ={"TEST_INT": ""})

    def test_invalid_bool(self) -> None:
        """Test that non-canonical booleans fail."""
        with pytest.raises(ParseError, match="TEST_BOOL"):
            process("", BasicConfig(), environ={"TEST_BOOL": "yes"})

    def test_overflow(self) -> None:
        """Test fixed-width overflow."""
        with pytest.raises(ParseError, match="out of range"):
            process("", ComplexConfig(), environ={"SMALL": "300"})

    def test_fail_fast(self) -> None:
        """Test that a failed bind leaves the destination untouched."""
        config = BasicConfig()
        with pytest.raises(ParseError):
            process(
                "",
                config,
                environ={"TEST_STRING": "first", "TEST_INT": "bad", "TEST_BOOL": "true"},
            )
        assert config == BasicConfig()

    def test_failed_nested_bind_leaves_parent_untouched(self) -> None:
        """Test that earlier nested fields are not written after a later error."""
        config = AppConfig()
        with pytest.raises(ParseError):
            process(
                "FIN",
                config,
                environ={
                    "FIN_APP_NAME": "myapp",
                    "FIN_DB__HOST": "localhost",
                    "FIN_DB__PORT": "not-a-port",
                },
            )
        assert config.app_name == ""
        assert config.database.host == ""

    def test_required_error_leaves_destination_untouched(self) -> None:
        """Test that a missing required field discards earlier values."""
        config = OrderedRequiredConfig()
        with pytest.raises(RequiredFieldError):
            process("", config, environ={"NAME": "first"})
        assert config.name == ""

    @pytest.mark.parametrize(
        "spec",
        [None, BasicConfig, "string", 42, {"a": 1}, FrozenConfig()],
        ids=["none", "class", "str", "int", "dict", "frozen"],
    )
    def test_invalid_specification(self, spec: object) -> None:
        """Test invalid destinations."""
        env = RecordingEnvironment({"TEST_STRING": "hello"})
        with pytest.raises(InvalidSpecificationError):
            process("", spec, environ=env)
        assert env.lookups == []


class TestMustProcess:
    """Tests for must_process function."""

    def test_success(self) -> None:
        """Test that success binds normally."""
        config = BasicConfig()
        must_process("", config, environ={"TEST_STRING": "hello"})
        assert config.string_field == "hello"

    def test_failure_exits(self, mocker: MockerFixture) -> None:
        """Test that errors become SystemExit."""
        logger = mocker.patch("envbind.binder.logger")
        with pytest.raises(SystemExit) as exc_info:
            must_process("", None)
        assert "must not be None" in str(exc_info.value.code)
        logger.critical.assert_called_once()


class TestLoad:
    """Tests for load function."""

    def test_load_pydantic(self) -> None:
        """Test loading a pydantic model."""
        config = load(AppConfig, "FIN", environ={"FIN_DB__PORT": "5432"})
        assert isinstance(config, AppConfig)
        assert config.database.port == 5432

    def test_load_dataclass(self) -> None:
        """Test loading a dataclass."""
        config = load(ThreeLevel, environ={"OUTER__MIDDLE__VALUE": "x"})
        assert config.outer.middle.value == "x"

    def test_load_rejects_instance(self) -> None:
        """Test that load expects a class."""
        with pytest.raises(InvalidSpecificationError):
            load(BasicConfig(), environ={})  # type: ignore[arg-type]

    def test_load_rejects_non_structure(self) -> None:
        """Test that load expects a structure class."""
        with pytest.raises(InvalidSpecificationError):
            load(dict, environ={})


class TestGather:
    """Tests for gather function."""

    def test_keys_in_declaration_order(self) -> None:
        """Test keys of a flat structure."""
        keys = [info.key for info in gather("", BasicConfig)]
        assert keys == ["TEST_STRING", "TEST_INT", "TEST_BOOL", "TEST_DEFAULT"]

    def test_nested_keys(self) -> None:
        """Test keys and dotted paths of nested fields."""
        infos = gather("FIN", AppConfig())
        assert [info.key for info in infos] == [
            "FIN_APP_NAME",
            "FIN_DB__HOST",
            "FIN_DB__PORT",
            "FIN_DB__PASSWORD",
        ]
        assert infos[1].field == "database.host"

    def test_fallback_keys(self) -> None:
        """Test fallback keys of a deep field."""
        (info,) = gather("", ThreeLevel)
        assert info.key == "OUTER__MIDDLE__VALUE"
        assert info.fallback_keys == ("OUTER__MIDDLE",)

    def test_metadata(self) -> None:
        """Test required, default and type name."""
        (info,) = gather("", RequiredWithDefaultConfig)
        assert info.required is True
        assert info.default == "8080"
        assert info.type_name == "int"

    def test_invalid(self) -> None:
        """Test non-structure specification."""
        with pytest.raises(InvalidSpecificationError):
            gather("", "not a struct")


class TestConcurrentBinding:
    """Tests for binds running in parallel threads."""

    def test_parallel_loads_are_independent(self) -> None:
        """Test that concurrent binds into separate destinations do not interfere."""

        def bind(i: int) -> AppConfig:
            return load(
                AppConfig,
                "FIN",
                environ={"FIN_APP_NAME": f"app-{i}", "FIN_DB__PORT": str(5000 + i)},
            )

        with ThreadPoolExecutor(max_workers=8) as executor:
            configs = list(executor.map(bind, range(64)))

        assert [config.app_name for config in configs] == [f"app-{i}" for i in range(64)]
        assert [config.database.port for config in configs] == [5000 + i for i in range(64)]
        assert len({id(config.database) for config in configs}) == 64

    def test_parallel_failure_does_not_affect_others(self) -> None:
        """Test that a failing bind leaves concurrent binds intact."""

        def bind(i: int) -> BasicConfig | None:
            config = BasicConfig()
            value = "bad" if i % 2 else str(i)
            try:
                process("", config, environ={"TEST_STRING": f"s{i}", "TEST_INT": value})
            except ParseError:
                assert config == BasicConfig()
                return None
            return config

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(bind, range(32)))

        for i, result in enumerate(results):
            if i % 2:
                assert result is None
            else:
                assert result is not None
                assert (result.string_field, result.int_field) == (f"s{i}", i)

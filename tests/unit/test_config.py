"""
Unit tests for configuration parsing, layering and saving.
"""

import json

import pytest

from flowkit.config import Flags, JSONParser, Loader, default_config
from flowkit.config.models import KeyType
from flowkit.errors import (
    ConfigNotFoundError,
    ConfigOutdatedError,
    InvalidAddressError,
    InvalidConfigError,
    MissingEnvironmentVariableError,
    NotFoundError,
)
from flowkit.models import Address, SignatureAlgorithm

from tests.conftest import (
    ALICE_KEY,
    FUNGIBLE_TOKEN_ADDRESS,
    SERVICE_ADDRESS,
    SERVICE_KEY,
    InMemoryReaderWriter,
    project_config,
)


FULL_CONFIG = {
    "emulators": {"default": {"port": 3569, "serviceAccount": "emulator-account"}},
    "contracts": {
        "Hello": "./Hello.cdc",
        "FungibleToken": {"source": "./FungibleToken.cdc", "aliases": {"emulator": FUNGIBLE_TOKEN_ADDRESS}},
    },
    "networks": {
        "emulator": "127.0.0.1:3569",
        "testnet": {"host": "access.devnet.nodes.onflow.org:9000"},
        "fork": {"host": "", "fork": "testnet"},
    },
    "accounts": {
        "emulator-account": {"address": SERVICE_ADDRESS, "key": SERVICE_KEY},
        "file-account": {"address": "01cf0e2f2f715450", "key": {"type": "file", "location": "./file.pkey"}},
        "k1-account": {
            "address": "179b6b1cb6755e31",
            "key": {"privateKey": ALICE_KEY, "signatureAlgorithm": "ECDSA_secp256k1", "index": 1},
        },
    },
    "deployments": {
        "emulator": {
            "emulator-account": ["Hello", {"name": "FungibleToken", "args": [{"type": "String", "value": "x"}]}],
        },
    },
}


def _load(files, paths=("flow.json",)):
    return Loader(InMemoryReaderWriter(files)).load(list(paths))


class TestJSONParser:
    """Tests for the JSON configuration format."""

    @pytest.mark.unit
    def test_parse_full_config(self):
        """Every section parses into the model."""
        conf = _load({"flow.json": json.dumps(FULL_CONFIG)})

        assert conf.emulators.default().service_account == "emulator-account"
        assert conf.contracts.by_name("FungibleToken").alias("emulator").address == Address.from_hex(FUNGIBLE_TOKEN_ADDRESS)
        assert conf.accounts.by_name("file-account").key.type == KeyType.FILE
        k1 = conf.accounts.by_name("k1-account").key
        assert k1.sig_algo == SignatureAlgorithm.ECDSA_secp256k1
        assert k1.index == 1

        deployment = conf.deployments.by_account_and_network("emulator-account", "emulator")
        assert [c.name for c in deployment.contracts] == ["Hello", "FungibleToken"]
        assert deployment.contracts[1].args[0].value == "x"

    @pytest.mark.unit
    def test_round_trip(self):
        """Saving and loading again yields an equal config."""
        parser = JSONParser()
        conf = _load({"flow.json": json.dumps(FULL_CONFIG)})

        again = parser.deserialize(parser.serialize(conf))
        again.resolve_forks()

        assert again == conf

    @pytest.mark.unit
    def test_fork_inherits_host(self):
        """A forked network without host takes its source host."""
        conf = _load({"flow.json": json.dumps(FULL_CONFIG)})
        assert conf.networks.by_name("fork").host == "access.devnet.nodes.onflow.org:9000"

    @pytest.mark.unit
    def test_fork_cycle_rejected(self):
        """Fork chains that loop back are invalid."""
        data = dict(FULL_CONFIG, networks={
            "emulator": "127.0.0.1:3569",
            "a": {"host": "h", "fork": "b"},
            "b": {"host": "h", "fork": "a"},
        })
        with pytest.raises(InvalidConfigError):
            _load({"flow.json": json.dumps(data)})

    @pytest.mark.unit
    def test_outdated_format(self):
        """Pre-release configs with top-level host are reported as outdated."""
        with pytest.raises(ConfigOutdatedError):
            _load({"flow.json": json.dumps({"host": "127.0.0.1:3569"})})

    @pytest.mark.unit
    def test_syntax_error(self):
        """Broken JSON is an invalid config."""
        with pytest.raises(InvalidConfigError):
            _load({"flow.json": "{"})

    @pytest.mark.unit
    def test_alias_must_match_network_chain(self):
        """An emulator address cannot alias a contract on testnet."""
        data = dict(FULL_CONFIG, contracts={
            "Hello": {"source": "./Hello.cdc", "aliases": {"testnet": SERVICE_ADDRESS}},
        })
        with pytest.raises(InvalidAddressError):
            _load({"flow.json": json.dumps(data)})

    @pytest.mark.unit
    def test_deployment_references_checked(self):
        """Deployments naming unknown contracts fail validation."""
        data = dict(FULL_CONFIG, deployments={"emulator": {"emulator-account": ["Missing"]}})
        with pytest.raises(NotFoundError):
            _load({"flow.json": json.dumps(data)})

    @pytest.mark.unit
    def test_conflicting_key_sources(self):
        """A key may only name one source."""
        data = dict(FULL_CONFIG, accounts={
            "bad": {"address": SERVICE_ADDRESS, "key": {"privateKey": SERVICE_KEY, "location": "k.pkey"}},
        })
        data["emulators"] = {}
        data["deployments"] = {}
        with pytest.raises(InvalidConfigError):
            _load({"flow.json": json.dumps(data)})

    @pytest.mark.unit
    def test_env_substitution(self, monkeypatch):
        """Keys can be read from the environment."""
        monkeypatch.setenv("FLOW_SERVICE_KEY", SERVICE_KEY)
        data = dict(FULL_CONFIG)
        data["accounts"] = dict(FULL_CONFIG["accounts"], **{
            "emulator-account": {"address": SERVICE_ADDRESS, "key": "${FLOW_SERVICE_KEY}"},
        })
        conf = _load({"flow.json": json.dumps(data)})
        assert conf.accounts.by_name("emulator-account").key.private_key == SERVICE_KEY

    @pytest.mark.unit
    def test_env_missing(self, monkeypatch):
        """Unset variables are reported by name."""
        monkeypatch.delenv("FLOW_MISSING_KEY", raising=False)
        data = dict(FULL_CONFIG)
        data["accounts"] = dict(FULL_CONFIG["accounts"], **{
            "emulator-account": {"address": SERVICE_ADDRESS, "key": "$FLOW_MISSING_KEY"},
        })
        with pytest.raises(MissingEnvironmentVariableError) as exc:
            _load({"flow.json": json.dumps(data)})
        assert exc.value.name == "FLOW_MISSING_KEY"


class TestLoader:
    """Tests for layered loading and saving."""

    @pytest.mark.unit
    def test_missing_config(self):
        """No existing file means no configuration."""
        with pytest.raises(ConfigNotFoundError):
            _load({})

    @pytest.mark.unit
    def test_later_layer_overrides(self):
        """Same-name entries of later files win."""
        override = json.dumps({"networks": {"emulator": "127.0.0.1:9999"}})
        conf = _load(
            {"flow.json": project_config(), "local.json": override},
            paths=["flow.json", "local.json"],
        )
        assert conf.networks.by_name("emulator").host == "127.0.0.1:9999"
        assert conf.networks.by_name("testnet").host == "access.devnet.nodes.onflow.org:9000"

    @pytest.mark.unit
    def test_missing_layers_skipped(self):
        """Absent files are ignored when one exists."""
        loader = Loader(InMemoryReaderWriter({"flow.json": project_config()}))
        loader.load(["missing.json", "flow.json"])
        assert loader.loaded_paths == ["flow.json"]

    @pytest.mark.unit
    def test_save_edited_single_path(self):
        """Edits go back to the single file they came from."""
        rw = InMemoryReaderWriter({"custom.json": project_config()})
        loader = Loader(rw)
        conf = loader.load(["custom.json"])
        conf.networks.by_name("emulator").host = "127.0.0.1:4000"

        loader.save_edited(conf, ["custom.json"])

        saved = json.loads(rw.files["custom.json"])
        assert saved["networks"]["emulator"] == "127.0.0.1:4000"
        assert rw.modes["custom.json"] == 0o644

    @pytest.mark.unit
    def test_save_edited_multiple_paths(self):
        """Several explicit files cannot be written back."""
        loader = Loader(InMemoryReaderWriter())
        with pytest.raises(InvalidConfigError):
            loader.save_edited(default_config(), ["a.json", "b.json"])

    @pytest.mark.unit
    def test_default_config(self):
        """The default config knows the public networks and one emulator."""
        conf = default_config()
        assert conf.networks.names() == ["emulator", "testnet", "mainnet"]
        assert conf.emulators.default() is not None


class TestFlags:
    """Tests for command flags."""

    @pytest.mark.unit
    def test_defaults(self):
        """Flags default to the emulator network and info logging."""
        flags = Flags()
        assert flags.network == "emulator"
        assert flags.log == "info"
        assert not flags.has_custom_host()
        assert flags.skip_version_check is False

    @pytest.mark.unit
    def test_network_key(self):
        """An empty host key means none."""
        assert Flags().network_key() is None
        assert Flags(host_network_key="abc").network_key() == "abc"

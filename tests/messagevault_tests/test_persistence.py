"""Tests for chain snapshot storage."""

import json

import pytest

from messagevault.core.chain_persistence import ChainStorage, chain_from_dict, chain_to_dict
from messagevault.core.client import VaultClient
from messagevault.core.contracts import EntryPoint, MessageVault
from messagevault.core.exceptions import CorruptedStateError, StorageError
from messagevault.core.vm import encode_call


@pytest.fixture
def storage(tmp_path):
    return ChainStorage(str(tmp_path / "state" / "chain.json"))


class TestRoundTrip:
    """save() then load() reproduces the chain."""

    def test_contracts_balances_and_logs(self, chain, vault, entry_point, owner, bob, storage):
        client = VaultClient(chain, vault.address)
        client.send_message(bob.key, "persist me")
        chain.transact(owner.address, vault.address, "add_deposit", value=123)

        storage.save(chain)
        loaded = storage.load()

        loaded_vault = loaded.get_contract(vault.address)
        assert isinstance(loaded_vault, MessageVault)
        assert loaded_vault.owner == owner.address
        assert loaded_vault.next_message_id == 1
        assert isinstance(loaded.get_contract(entry_point.address), EntryPoint)
        assert loaded.balance_of(owner.address) == chain.balance_of(owner.address)
        assert loaded.static_call(vault.address, "entry_point_balance") == 123
        assert [r.content for r in VaultClient(loaded, vault.address).messages()] == ["persist me"]

    def test_loaded_chain_keeps_working(self, chain, vault, owner, bob, storage):
        VaultClient(chain, vault.address).send_message(bob.key, "one")
        storage.save(chain)

        loaded = storage.load()
        client = VaultClient(loaded, vault.address)
        client.send_message(owner.key, "two")

        assert [(r.id, r.actor) for r in client.messages()] == [(1, bob.address), (2, owner.address)]

    def test_pending_signer_persisted(self, chain, vault, entry_point, bob, make_op, storage):
        op = make_op(bob, encode_call("sendMessageToWallet(string)", ["x"]))
        chain.transact(entry_point.address, vault.address, "validate_user_op", op, op.hash(entry_point.address, chain.chain_id), 0)
        storage.save(chain)

        assert storage.load().get_contract(vault.address).temporary.signer == bob.address

    def test_bytes_log_values_keep_type(self, chain, vault, entry_point, bob, make_op, storage):
        op = make_op(bob, encode_call("sendMessageToWallet(string)", ["hash me"]))
        chain.transact(bob.address, entry_point.address, "handle_ops", [op], bob.address)
        [event] = chain.get_logs(entry_point.address, "UserOperationEvent")

        storage.save(chain)
        [loaded] = storage.load().get_logs(entry_point.address, "UserOperationEvent")

        assert isinstance(loaded.args["user_op_hash"], bytes)
        assert loaded.args == event.args

    def test_dict_round_trip(self, chain, vault):
        loaded = chain_from_dict(json.loads(json.dumps(chain_to_dict(chain))))

        assert loaded.chain_id == chain.chain_id
        assert set(loaded.contracts) == set(chain.contracts)
        assert loaded.nonces == chain.nonces


class TestFailures:
    """Missing, corrupted and unknown content."""

    def test_missing_file(self, storage):
        assert not storage.exists()

        with pytest.raises(StorageError):
            storage.load()

    def test_checksum_mismatch(self, chain, vault, storage):
        storage.save(chain)
        with open(storage.path, "r", encoding="utf-8") as f:
            package = json.load(f)
        package["chain"]["chain_id"] = 1
        with open(storage.path, "w", encoding="utf-8") as f:
            json.dump(package, f)

        with pytest.raises(CorruptedStateError, match="checksum"):
            storage.load()

    def test_invalid_json(self, storage, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(CorruptedStateError):
            ChainStorage(str(path)).load()

    def test_unknown_contract_type(self, chain, vault):
        data = chain_to_dict(chain)
        data["contracts"][vault.address]["type"] = "Mystery"

        with pytest.raises(CorruptedStateError, match="Mystery"):
            chain_from_dict(data)

    def test_save_returns_checksum(self, chain, storage):
        checksum = storage.save(chain)

        with open(storage.path, "r", encoding="utf-8") as f:
            assert json.load(f)["metadata"]["checksum"] == checksum
        assert len(checksum) == 64

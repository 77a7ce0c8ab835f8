"""
Shared fixtures: an in-memory stand-in for the Supabase client.

The fake only records what the code asks of the query builder and auth API;
it does not evaluate filters. Tests seed ``client.data`` with the rows a
given table should return.
"""
import os
import itertools
from types import SimpleNamespace

os.environ.setdefault("MPLBACKEND", "Agg")

import pytest


class FakeApiError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args, **kwargs)

    def eq(self, *args, **kwargs):
        return self._record("eq", *args, **kwargs)

    def order(self, *args, **kwargs):
        return self._record("order", *args, **kwargs)

    def insert(self, *args, **kwargs):
        return self._record("insert", *args, **kwargs)

    def delete(self, *args, **kwargs):
        return self._record("delete", *args, **kwargs)

    def execute(self):
        self.client.executed.append(self)
        failure = self.client.fail.get(self.table)
        if failure is not None:
            raise failure
        op = self.calls[0][0]
        if op == "insert" and self.table not in self.client.data:
            row = dict(self.calls[0][1][0])
            row.setdefault("id", f"{self.table}-{next(self.client.ids)}")
            row.setdefault("created_at", "2026-10-18T09:00:00+00:00")
            return SimpleNamespace(data=[row])
        if op == "delete":
            # PostgREST answers a delete with the rows it removed
            row_id = next(args[1] for name, args, _ in self.calls if name == "eq" and args[0] == "id")
            gone = row_id in self.client.missing
            return SimpleNamespace(data=[] if gone else [{"id": row_id}])
        return SimpleNamespace(data=self.client.data.get(self.table, []))


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.session = None
        self.callbacks = []
        self.sign_in_error = None
        self.sign_out_error = None
        self.get_session_error = None
        self.ids = itertools.count(1)

    def _fire(self, event, session):
        for cb in list(self.callbacks):
            cb(event, session)

    def on_auth_state_change(self, callback):
        self.callbacks.append(callback)
        return SimpleNamespace(unsubscribe=lambda: self.callbacks.remove(callback))

    def sign_up(self, creds):
        if creds["email"] in self.users:
            raise FakeApiError("User already registered")
        self.users[creds["email"]] = (creds["password"], f"user-{next(self.ids)}")
        return SimpleNamespace(user=None, session=None)

    def sign_in_with_password(self, creds):
        if self.sign_in_error is not None:
            raise self.sign_in_error
        stored = self.users.get(creds["email"])
        if stored is None or stored[0] != creds["password"]:
            raise FakeApiError("Invalid login credentials")
        user = SimpleNamespace(id=stored[1], email=creds["email"])
        self.session = SimpleNamespace(user=user, access_token="token")
        self._fire("SIGNED_IN", self.session)
        return SimpleNamespace(user=user, session=self.session)

    def sign_out(self):
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.session = None
        self._fire("SIGNED_OUT", None)

    def get_session(self):
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session


class FakeClient:
    def __init__(self):
        self.auth = FakeAuth()
        self.data = {}
        self.fail = {}
        self.missing = set()
        self.executed = []
        self.ids = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)

    def last(self, table=None):
        queries = [q for q in self.executed if table is None or q.table == table]
        return queries[-1] if queries else None


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def api_error():
    return FakeApiError


@pytest.fixture
def make_loan():
    """Build a loans row as PostgREST returns it, payments embedded."""
    counter = itertools.count(1)

    def _make(principal=100000, paid=(), monthly_payment=20000, status="active", **extra):
        n = next(counter)
        loan_id = extra.pop("id", f"loan-{n}")
        row = {
            "id": loan_id,
            "user_id": "user-1",
            "name": f"Loan {n}",
            "principal": principal,
            "interest_rate": 0,
            "monthly_payment": monthly_payment,
            "tenure": 12,
            "start_date": "2026-01-15",
            "category": "personal",
            "status": status,
            "created_at": f"2026-01-{n:02d}T10:00:00+00:00",
            "payments": [
                {"id": f"{loan_id}-p{i}", "loan_id": loan_id, "amount": amt, "note": None}
                for i, amt in enumerate(paid, 1)
            ],
        }
        row.update(extra)
        return row

    return _make

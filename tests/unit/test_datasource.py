"""
Unit tests for the data source over a fake libpq connection.
"""
import datetime
import logging

import pgsource
import pytest
from pgsource.criteria import Aggregate, Collection, Criteria, eq
from pgsource.datasource import PostgreSQLDataSource, connect
from pgsource.exceptions import AuthException, ConnectionException
from pgsource.exceptions import DuplicateEntryException, UnknownCollectionException
from pgsource.exceptions import UnknownSchemaException
from pgsource.options import DatabaseOptions
from pgsource.statement import PendingStatement
from psycopg import pq
from psycopg.conninfo import conninfo_to_dict

from tests.fixtures.mocks import BOOL, FLOAT8, INT4, INT8, NAME, NUMERIC
from tests.fixtures.mocks import TEXT, TIMESTAMP, TIMESTAMPTZ, FakePGconn
from tests.fixtures.mocks import FakeResult


@pytest.fixture
def users():
    return Collection('users')


class TestExecute:

    def test_returns_affected_rows(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(command_tuples=3))
        ds = make_datasource(fake_pgconn)
        assert ds.execute('update users set active = false') == 3
        assert fake_pgconn.sent == ['update users set active = false']

    def test_no_count_reported_is_zero(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(command_tuples=None))
        assert make_datasource(fake_pgconn).execute('create table t (a int)') == 0

    def test_parameters_are_interpolated(self, fake_pgconn, make_datasource):
        ds = make_datasource(fake_pgconn)
        ds.execute('delete from users where name = ? and age > ?', ["O'Brien", 30])
        assert fake_pgconn.sent == ["delete from users where name = 'O''Brien' and age > 30"]

    def test_statistics(self, fake_pgconn, make_datasource):
        ds = make_datasource(fake_pgconn)
        ds.execute('select 1')
        ds.execute('select 2')
        assert ds.calls == 2
        assert ds.time >= 0

    def test_sql_is_logged(self, fake_pgconn, make_datasource, caplog):
        with caplog.at_level(logging.DEBUG, logger='pgsource.datasource'):
            make_datasource(fake_pgconn).execute('select 42')
        assert 'select 42' in caplog.text

    def test_poll_interval_from_options(self, sleep_recorder, make_datasource):
        pgconn = FakePGconn(busy_polls=2)
        options = DatabaseOptions(database='db', poll_interval=0.5)
        make_datasource(pgconn, options=options).execute('select 1')
        assert sleep_recorder.calls == [0.5, 0.5]


class TestQuery:

    def test_rows_are_decoded(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(
            columns=[('id', INT4), ('name', TEXT), ('active', BOOL), ('created', TIMESTAMP),
                     ('score', NUMERIC), ('total', FLOAT8), ('big', INT8)],
            rows=[('1', 'Alice', 't', '2024-01-02 03:04:05', '10.50', '9.5', '12345678901'),
                  ('2', 'Bob', 'f', None, None, '0', None)],
        ))
        rows = make_datasource(fake_pgconn).query('select * from users')
        assert rows == [
            {'id': 1, 'name': 'Alice', 'active': True,
             'created': datetime.datetime(2024, 1, 2, 3, 4, 5), 'score': 10.5, 'total': 9.5,
             'big': 12345678901},
            {'id': 2, 'name': 'Bob', 'active': False, 'created': None, 'score': None,
             'total': 0.0, 'big': None},
        ]

    def test_column_order_is_kept(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(columns=[('z', INT4), ('a', INT4), ('m', INT4)],
                                       rows=[('1', '2', '3')]))
        row = make_datasource(fake_pgconn).query('select 1 as z, 2 as a, 3 as m')[0]
        assert list(row) == ['z', 'a', 'm']

    def test_timestamptz(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(columns=[('seen', TIMESTAMPTZ)],
                                       rows=[('2024-01-02 03:04:05+00',)]))
        seen = make_datasource(fake_pgconn).query('select seen from users')[0]['seen']
        assert seen == datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)

    def test_empty_result(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(columns=[('id', INT4)], rows=[]))
        assert make_datasource(fake_pgconn).query('select id from users where false') == []

    def test_named_parameters(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(columns=[('id', INT4)], rows=[]))
        make_datasource(fake_pgconn).query('select id from users where name = :name',
                                           {'name': 'Alice'})
        assert fake_pgconn.sent == ["select id from users where name = 'Alice'"]

    def test_result_types(self, make_datasource):
        result = FakeResult(columns=[('id', INT4), ('name', TEXT), ('flags', 1007)])
        assert make_datasource().result_types(result) == {
            'id': 'int4', 'name': 'text', 'flags': '_int4',
        }

    def test_unknown_oid_is_looked_up(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(
            FakeResult(columns=[('mood', 999999)], rows=[('happy',)]),
            FakeResult(columns=[('typname', NAME)], rows=[('mood',)]),
        )
        ds = make_datasource(fake_pgconn)
        assert ds.query('select mood from people') == [{'mood': 'happy'}]
        assert fake_pgconn.sent == [
            'select mood from people',
            'SELECT typname FROM pg_catalog.pg_type WHERE oid = 999999',
        ]

    def test_unknown_oid_lookup_is_cached(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(
            FakeResult(columns=[('mood', 999999)], rows=[]),
            FakeResult(columns=[('typname', NAME)], rows=[('mood',)]),
            FakeResult(columns=[('mood', 999999)], rows=[]),
        )
        ds = make_datasource(fake_pgconn)
        ds.query('select mood from people')
        ds.query('select mood from people')
        assert len(fake_pgconn.sent) == 3


class TestErrors:

    def test_duplicate_entry(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(sqlstate='23505', message='duplicate key value'))
        with pytest.raises(DuplicateEntryException):
            make_datasource(fake_pgconn).save({'name': 'Alice'}, users)

    def test_unknown_collection(self, fake_pgconn, make_datasource):
        fake_pgconn.respond(FakeResult(sqlstate='42P01', message='relation "nope" does not exist'))
        with pytest.raises(UnknownCollectionException) as exc_info:
            make_datasource(fake_pgconn).query('select * from nope')
        assert exc_info.value.sql == 'select * from nope'

    def test_closed_connection(self, fake_pgconn, make_datasource):
        ds = make_datasource(fake_pgconn)
        ds.close()
        assert fake_pgconn.finished
        assert ds.closed
        with pytest.raises(ConnectionException, match='closed'):
            ds.execute('select 1')

    def test_close_twice(self, fake_pgconn, make_datasource):
        ds = make_datasource(fake_pgconn)
        ds.close()
        ds.close()
        assert ds.closed

    def test_statement_in_flight(self, fake_pgconn, make_datasource):
        ds = make_datasource(fake_pgconn)
        pending = PendingStatement(fake_pgconn, 'select pg_sleep(10)')
        pending.send()
        ds.statement = pending
        with pytest.raises(RuntimeError, match='in flight'):
            ds.execute('select 1')
        assert fake_pgconn.sent == ['select pg_sleep(10)']

    def test_context_manager_closes(self, fake_pgconn, make_datasource):
        with make_datasource(fake_pgconn) as ds:
            ds.execute('select 1')
        assert fake_pgconn.finished


class TestCriteriaOperations:

    def test_find(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(columns=[('id', INT4)], rows=[('42',)]))
        ds = make_datasource(fake_pgconn)
        rows = ds.find(Criteria(users).where(eq(users.field('id'), 42)))
        assert rows == [{'id': 42}]
        assert fake_pgconn.sent == ['SELECT * FROM "users" WHERE "users"."id" = 42']

    def test_count(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(columns=[('count', INT8)], rows=[('3',)]))
        assert make_datasource(fake_pgconn).count(Criteria(users)) == 3
        assert fake_pgconn.sent == ['SELECT COUNT(*) FROM "users"']

    def test_aggregate(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(columns=[('max', INT4)], rows=[('41',)]))
        ds = make_datasource(fake_pgconn)
        assert ds.aggregate(Aggregate('MAX', users.field('age')), Criteria(users)) == 41
        assert fake_pgconn.sent == ['SELECT MAX("users"."age") FROM "users"']

    def test_aggregate_without_rows(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(columns=[('max', INT4)], rows=[]))
        assert make_datasource(fake_pgconn).aggregate(Aggregate('MAX'), Criteria(users)) is None

    def test_update(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(command_tuples=1))
        ds = make_datasource(fake_pgconn)
        assert ds.update({'age': 31}, Criteria(users).where(eq(users.field('id'), 1))) == 1
        assert fake_pgconn.sent == ['UPDATE "users" SET "age" = 31 WHERE "users"."id" = 1']

    def test_delete(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(command_tuples=2))
        assert make_datasource(fake_pgconn).delete(Criteria(users)) == 2
        assert fake_pgconn.sent == ['DELETE FROM "users"']

    def test_factories(self, make_datasource):
        ds = make_datasource()
        assert ds.get_collection('users', 'u') == Collection('users', 'u')
        assert ds.get_criteria('users').collection == Collection('users')
        assert ds.get_criteria(Collection('users', 'u')).collection.alias == 'u'


class TestSave:

    def test_save_with_sequence(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(
            FakeResult(command_tuples=1),
            FakeResult(columns=[('currval', INT8)], rows=[('7',)]),
        )
        ds = make_datasource(fake_pgconn)
        assert ds.save({'name': 'a'}, users, 'users_id_seq') == 7
        assert fake_pgconn.sent == [
            """INSERT INTO "users" ("name") VALUES ('a')""",
            "SELECT CURRVAL('users_id_seq')",
        ]

    def test_save_without_sequence(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(command_tuples=1))
        ds = make_datasource(fake_pgconn)
        assert ds.save({'name': 'a'}, users) is None
        assert len(fake_pgconn.sent) == 1

    def test_save_multiple(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(command_tuples=2))
        ds = make_datasource(fake_pgconn)
        assert ds.save_multiple([{'name': 'a'}, {'name': 'b'}], users) == 2
        assert fake_pgconn.sent == ["""INSERT INTO "users" ("name") VALUES ('a'), ('b')"""]

    def test_save_multiple_empty(self, fake_pgconn, make_datasource, users):
        assert make_datasource(fake_pgconn).save_multiple([], users) == 0
        assert fake_pgconn.sent == []

    def test_save_multiple_rows_of_defaults(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(FakeResult(command_tuples=3))
        ds = make_datasource(fake_pgconn)
        assert ds.save_multiple([{}, {}, {}], users) == 3
        assert fake_pgconn.sent == ['INSERT INTO "users" SELECT FROM generate_series(1, 3)']


class TestTransactionStatements:

    def test_statements(self, fake_pgconn, make_datasource):
        ds = make_datasource(fake_pgconn)
        ds.begin_transaction()
        ds.commit()
        ds.begin_transaction()
        ds.rollback()
        assert fake_pgconn.sent == ['START TRANSACTION', 'COMMIT', 'START TRANSACTION', 'ROLLBACK']


class TestModuleFacade:

    def test_functions_delegate(self, fake_pgconn, make_datasource, users):
        fake_pgconn.respond(
            FakeResult(command_tuples=1),
            FakeResult(columns=[('id', INT4)], rows=[('1',)]),
            FakeResult(columns=[('id', INT4)], rows=[('1',)]),
            FakeResult(columns=[('count', INT8)], rows=[('1',)]),
        )
        ds = make_datasource(fake_pgconn)
        assert pgsource.execute(ds, 'delete from users where id = ?', [2]) == 1
        assert pgsource.query(ds, 'select id from users') == [{'id': 1}]
        assert pgsource.find(ds, Criteria(users)) == [{'id': 1}]
        assert pgsource.count(ds, Criteria(users)) == 1


class TestConnect:

    @staticmethod
    def failing_factory(message, captured):
        def factory(conninfo):
            captured.append(conninfo)
            return FakePGconn(status=pq.ConnStatus.BAD, error_message=message)
        return factory

    def test_conninfo(self):
        captured = []
        factory = self.failing_factory(b'connection refused', captured)
        with pytest.raises(ConnectionException):
            connect({'database': 'test_db', 'hostname': 'db.local:6543', 'username': 'bob',
                     'password': 'secret', 'appname': 'tests'}, connection_factory=factory)
        params = conninfo_to_dict(captured[0].decode('utf-8'))
        assert params['dbname'] == 'test_db'
        assert params['host'] == 'db.local'
        assert params['port'] == '6543'
        assert params['user'] == 'bob'
        assert params['password'] == 'secret'
        assert params['application_name'] == 'tests'
        assert params['client_encoding'] == 'UTF8'

    def test_keywords_override(self):
        captured = []
        factory = self.failing_factory(b'connection refused', captured)
        with pytest.raises(ConnectionException):
            connect({'database': 'a'}, connection_factory=factory, database='b')
        assert conninfo_to_dict(captured[0].decode('utf-8'))['dbname'] == 'b'

    def test_auth_failure_finishes_connection(self):
        pgconn = FakePGconn(status=pq.ConnStatus.BAD,
                            error_message=b'FATAL:  password authentication failed for user "bob"\n')
        with pytest.raises(AuthException, match='password authentication failed'):
            connect(database='db', connection_factory=lambda conninfo: pgconn)
        assert pgconn.finished

    def test_unknown_database(self):
        captured = []
        factory = self.failing_factory(b'FATAL:  database "nope" does not exist', captured)
        with pytest.raises(UnknownSchemaException):
            connect(database='nope', connection_factory=factory)

    def test_datasource_keeps_options(self, make_datasource):
        options = DatabaseOptions(database='db', username='bob')
        ds = make_datasource(options=options)
        assert isinstance(ds, PostgreSQLDataSource)
        assert ds.options is options
        assert str(ds.options) == 'bob@localhost:5432/db'

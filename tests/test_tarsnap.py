import os
import subprocess
import unittest
from textwrap import dedent
from unittest import mock

from pylifespan.errors import CatalogParseError, CollaboratorError
from pylifespan.interfaces import Datetime, Snapshot
from pylifespan.tarsnap import TarsnapArchiveManager

LISTING = dedent("""\
    archive-001\t2018-07-22 15:10:48
    archive-002\t2018-07-23 23:43:51
    archive-003\t2018-08-01 10:35:08
    """)


def completed(cmd, stdout=''):
    return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr='')


class TestParseArchives(unittest.TestCase):

    def test_archives_empty_input(self):
        self.assertEqual(TarsnapArchiveManager.parse_archives(''), [])

    def test_archives_valid(self):
        expected = [
            Snapshot(name='archive-001', dt=Datetime(2018, 7, 22, 15, 10, 48)),
            Snapshot(name='archive-002', dt=Datetime(2018, 7, 23, 23, 43, 51)),
            Snapshot(name='archive-003', dt=Datetime(2018, 8, 1, 10, 35, 8)),
        ]
        self.assertEqual(TarsnapArchiveManager.parse_archives(LISTING), expected)

    def test_archives_missing_timestamp(self):
        archives = dedent("""\
            archive-001\t2018-07-22 15:10:48
            archive-002
            archive-003\t2018-08-01 10:35:08""")
        with self.assertRaises(CatalogParseError) as ct:
            TarsnapArchiveManager.parse_archives(archives)
        self.assertEqual(ct.exception.row, 'archive-002')

    def test_archives_only_split_on_newline(self):
        archives = ('form\x0cfeed\t2018-01-01 00:00:00\n'
                    'next\x85line\t2018-01-02 00:00:00\n'
                    'para graph\t2018-01-03 00:00:00\n')
        snapshots = TarsnapArchiveManager.parse_archives(archives)
        self.assertEqual([s.name for s in snapshots], ['form\x0cfeed', 'next\x85line', 'para graph'])

    def test_archives_without_trailing_newline(self):
        snapshots = TarsnapArchiveManager.parse_archives(LISTING.rstrip('\n'))
        self.assertEqual(len(snapshots), 3)

    def test_archives_blank_row_fails(self):
        with self.assertRaises(CatalogParseError):
            TarsnapArchiveManager.parse_archives(LISTING + '\n')


class TestTarsnapArchiveManager(unittest.TestCase):

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_undecodable_names_survive_until_deletion(self, run):
        raw = b'caf\xe9\t2018-01-01 00:00:00\n'
        run.return_value = completed(['tarsnap'], stdout=raw.decode('utf-8', 'surrogateescape'))
        manager = TarsnapArchiveManager()

        snapshots = manager.query()
        self.assertEqual(run.call_args.kwargs['errors'], 'surrogateescape')
        self.assertTrue(run.call_args.kwargs['text'])

        manager.destroy([s.name for s in snapshots])
        cmd = run.call_args.args[0]
        self.assertEqual(os.fsencode(cmd[-1]), b'caf\xe9')

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_lists_archives_in_utc(self, run):
        run.return_value = completed(['tarsnap'], stdout=LISTING)
        manager = TarsnapArchiveManager()

        self.assertEqual(manager.list_archives(), LISTING)
        cmd = run.call_args.args[0]
        self.assertEqual(cmd, ['tarsnap', '--list-archives', '-v'])
        self.assertEqual(run.call_args.kwargs['env']['TZ'], 'UTC')

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_extra_args_come_before_the_command(self, run):
        run.return_value = completed(['tarsnap'], stdout=LISTING)
        manager = TarsnapArchiveManager(binary='/usr/local/bin/tarsnap',
                                        args=['--keyfile', '/root/tarsnap.key'])

        snapshots = manager.query()
        self.assertEqual([s.name for s in snapshots], ['archive-001', 'archive-002', 'archive-003'])
        cmd = run.call_args.args[0]
        self.assertEqual(cmd, [
            '/usr/local/bin/tarsnap', '--keyfile', '/root/tarsnap.key', '--list-archives', '-v'
        ])

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_destroys_sorted_names_in_one_call(self, run):
        run.return_value = completed(['tarsnap'])
        manager = TarsnapArchiveManager()

        names = manager.destroy({'b', 'c', 'a'})
        self.assertEqual(names, ['a', 'b', 'c'])
        run.assert_called_once()
        cmd = run.call_args.args[0]
        self.assertEqual(cmd, ['tarsnap', '-d', '-f', 'a', '-f', 'b', '-f', 'c'])

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_destroy_nothing_does_not_run(self, run):
        self.assertEqual(TarsnapArchiveManager().destroy([]), [])
        run.assert_not_called()

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_destroy_with_dryrun_does_not_run(self, run):
        names = TarsnapArchiveManager().destroy(['b', 'a'], dryrun=True)
        self.assertEqual(names, ['a', 'b'])
        run.assert_not_called()

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_failed_command_raises_with_stderr(self, run):
        run.side_effect = subprocess.CalledProcessError(1, ['tarsnap'], stderr='tarsnap: Cannot read key file')

        with self.assertRaises(CollaboratorError) as ct:
            TarsnapArchiveManager().destroy(['a'])
        self.assertEqual(ct.exception.stderr, 'tarsnap: Cannot read key file')
        self.assertEqual(ct.exception.cmd, ['tarsnap', '-d', '-f', 'a'])

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_missing_binary_raises(self, run):
        run.side_effect = FileNotFoundError(2, 'No such file or directory', 'tarsnap')

        with self.assertRaises(CollaboratorError):
            TarsnapArchiveManager().list_archives()

    @mock.patch('pylifespan.tarsnap.subprocess.run')
    def test_bad_listing_raises(self, run):
        run.return_value = completed(['tarsnap'], stdout='archive-001\tsometime\n')

        with self.assertRaises(CatalogParseError):
            TarsnapArchiveManager().query()

    def test_can_configure_from_env(self):
        env = {'TARSNAP_BINARY': '/opt/tarsnap', 'TARSNAP_ARGS': '--keyfile "/root/my key"'}
        with mock.patch.dict(os.environ, env):
            manager = TarsnapArchiveManager.from_env()
        self.assertEqual(manager.binary, '/opt/tarsnap')
        self.assertEqual(manager.args, ['--keyfile', '/root/my key'])

    def test_defaults_without_env(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            manager = TarsnapArchiveManager.from_env()
        self.assertEqual(manager.binary, 'tarsnap')
        self.assertEqual(manager.args, [])


if __name__ == '__main__':
    unittest.main(verbosity=2)

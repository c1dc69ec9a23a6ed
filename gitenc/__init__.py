"""
Gitenc transparently encrypts files in a git repository.

Files are encrypted by a git clean filter when they are staged and
decrypted by a smudge filter when they are checked out. The key is kept
in the repository's .git directory and is never committed.

Initialize a repository with a new random key, or a key derived from a
seed that can be shared with other users of the repository:

\b
    $ gitenc init
    $ gitenc init --key "a long shared secret"

Check that every managed file is encrypted in the index:

\b
    $ gitenc doctor
    $ gitenc doctor --fix

Show the encrypted form of the working tree, and decrypt it again:

\b
    $ gitenc lock
    $ gitenc unlock
"""

__version__ = '0.1.0'

"""cpansa-db: CPAN security advisory database generator.

This package merges the CPANSA advisory corpus with CPAN index and MetaCPAN
release data and serializes the result as a static, versioned snapshot.
"""

__version__ = "0.1.0"

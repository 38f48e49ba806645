"""mdirrun - run the same commands across many directories at once."""

__version__ = "0.1.0"

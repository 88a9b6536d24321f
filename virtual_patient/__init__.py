"""Virtual patient training simulator: session core, evaluation and Streamlit host."""

__version__ = "0.2.0"

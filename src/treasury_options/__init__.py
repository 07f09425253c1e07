"""Treasury options: randomized option allocation and redemption over treasury assets."""

__version__ = "0.1.0"

import logging

from zenorun.config import config

logging.basicConfig(
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
    level=logging.INFO,
)
if config.debug:
    logging.getLogger('zenorun.process').setLevel(logging.DEBUG)
    logging.getLogger('zenorun.clients').setLevel(logging.DEBUG)

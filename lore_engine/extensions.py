import logging

log = logging.getLogger('lore_engine')

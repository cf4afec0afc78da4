"""Daynotes Meta information.
   Daynotes client keeps journal notes encrypted on the user's side.
"""
__title__ = 'daynotes'
__description__ = (
   'Daynotes client: session-bound encryption of journal notes '
   'and analyses before they reach the server.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Daynotes Authors'
__author__ = 'Daynotes Authors'
__author_email__ = 'dev@daynotes.app'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/daynotes/daynotes-client'

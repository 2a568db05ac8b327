"""Navigator CredStash Meta information.
   Navigator CredStash stores versioned secrets encrypted with KMS data keys
   in a DynamoDB table.
"""
__title__ = 'navigator_credstash'
__description__ = (
   'Navigator CredStash stores versioned secrets encrypted with '
   'KMS data keys in a DynamoDB table.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-credstash'

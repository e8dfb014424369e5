"""auth/ -- Identity, credential, and access-control core for the staff backend.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or mail/ except through the MailDispatcher
protocol it declares. api/ imports from auth/, not the other way around.
"""

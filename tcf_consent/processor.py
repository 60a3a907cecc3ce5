import json

from tcf_consent.errors import TCFError, UnexpectedEOFError
from tcf_consent.models import ConsentV2
from tcf_consent.parse import parse


class ConsentProcessor:
    """
    Decodes a TCF consent string and answers questions about it, using local
    copies of the Global Vendor List (GVL) and the CMP List for names, declared
    purposes and URLs.

    The files are only used to describe vendors and CMPs. The consent string
    is never checked against them.

    Attributes:
        consent_string (str): The TCF consent string being processed.
        gvl_filepath (str): Path to the GVL JSON file.
        cmp_list_filepath (str): Path to the CMP List JSON file.
        gvl_vendors_dict (dict): Vendors from the GVL, keyed by string vendor ID.
        cmp_list_dict (dict): CMPs from the CMP list, keyed by string CMP ID.
        consent (ConsentV1 | ConsentV2 | None): The decoded record. For a truncated
            string this is the partial record and error_state is also set.
        error_state (str | None): Decode failure message, if any.
    """

    def __init__(self,
                 consent_string: str,
                 gvl_filepath: str = 'vendor-list.json',
                 cmp_list_filepath: str = 'cmp-list.json',
                 verbose: bool = True):
        """
        Loads the data files and decodes the string.

        Args:
            consent_string (str): The TCF consent string to process. Can be None or empty.
            gvl_filepath (str): Path to the GVL JSON file. Defaults to 'vendor-list.json'.
            cmp_list_filepath (str): Path to the CMP List JSON file. Defaults to 'cmp-list.json'.
            verbose (bool): Print progress and warning messages. Defaults to True.
        """
        self.verbose = verbose
        if not isinstance(consent_string, str):
            self._say("Warning: Consent string was not a string, treating as empty.")
            consent_string = ""

        self.consent_string = consent_string
        self.gvl_filepath = gvl_filepath
        self.cmp_list_filepath = cmp_list_filepath

        self.consent = None
        self.error_state = None

        self.gvl_vendors_dict = self._load_keyed_json(gvl_filepath, 'vendors', 'GVL', root_fallback=False)
        self.cmp_list_dict = self._load_keyed_json(cmp_list_filepath, 'cmps', 'CMP list')
        self._decode()

    def _say(self, message: str):
        if self.verbose:
            print(message)

    def _load_keyed_json(self, filepath: str, key: str, label: str, root_fallback: bool = True) -> dict:
        """
        Loads a JSON file holding a dict of entries keyed by numeric ID, nested
        under `key` or, when root_fallback is set, at the root.

        A missing or malformed file is only a warning, since lookups can still
        fall back to 'unknown'.

        Returns:
            dict: Entries keyed by string ID, or an empty dict on failure.
        """
        self._say(f"Attempting to load {label} data from '{filepath}'...")
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            self._say(f"WARNING: {label} file '{filepath}' not found. Lookups will be limited.")
            return {}
        except (OSError, json.JSONDecodeError) as e:
            self._say(f"WARNING: Could not read {label} file '{filepath}': {e}. Lookups will be limited.")
            return {}

        if not isinstance(data, dict):
            entries = None
        else:
            entries = data.get(key, data if root_fallback else None)
        if not isinstance(entries, dict):
            self._say(f"WARNING: Expected a dictionary of entries in '{filepath}' (under '{key}').")
            return {}
        entries = {str(k): v for k, v in entries.items()}
        self._say(f"Successfully loaded {label} data. Found {len(entries)} entries.")
        return entries

    def _decode(self):
        if not self.consent_string:
            self.error_state = "Consent string is empty."
            self._say(f"ERROR: {self.error_state}")
            return

        self._say(f"\nAttempting to decode TCF string: '{self.consent_string[:50]}...'")
        try:
            self.consent = parse(self.consent_string)
        except UnexpectedEOFError as e:
            # keep what was decoded so metadata can still be inspected
            self.consent = e.consent
            self.error_state = f"Consent string is truncated: {e}"
            self._say(f"ERROR: {self.error_state}")
        except TCFError as e:
            self.error_state = f"Failed to decode TCF string: {e}"
            self._say(f"ERROR: {self.error_state}")
        else:
            self._say("Successfully decoded TCF string.")

    def _usable(self, what: str) -> bool:
        if self.consent is None or self.error_state:
            self._say(f"Warning: Cannot get {what}, consent not available or decode error.")
            return False
        return True

    def _consented_vendor_ids(self) -> list:
        # a default-consent v1 range also seeds id 0, which names no vendor
        return sorted(v for v in self.consent.consented_vendors if v > 0)

    def _get_vendor_gvl_data(self, vendor_id: int) -> dict:
        return self.gvl_vendors_dict.get(str(vendor_id), {})

    def _get_vendor_details(self, vendor_id: int) -> dict:
        """
        Formats the GVL entry of one vendor, with defaults for missing fields.
        """
        vendor_gvl_data = self._get_vendor_gvl_data(vendor_id)
        if not self.gvl_vendors_dict:
            name = 'unknown (GVL not loaded)'
        elif not vendor_gvl_data:
            name = 'unknown (Not in GVL)'
        else:
            name = vendor_gvl_data.get('name', 'unknown')

        return {
            'id': vendor_id,
            'name': name,
            'purposes': vendor_gvl_data.get('purposes', []),
            'legIntPurposes': vendor_gvl_data.get('legIntPurposes', []),
            'specialFeatures': vendor_gvl_data.get('specialFeatures', []),
            'policyUrl': vendor_gvl_data.get('policyUrl', ''),
        }

    # --- Public Methods ---

    def get_metadata(self) -> dict:
        """
        Header fields of the decoded string. Timestamps are ISO-8601 in UTC.

        Returns:
            dict: Version, timestamps, CMP identity and the like, plus the v2-only
                  header fields for v2 strings. Includes 'decode_error' when the
                  string was truncated. Returns {'error': message} if nothing
                  could be decoded.
        """
        if self.consent is None:
            return {'error': self.error_state or "Consent not available."}

        c = self.consent
        metadata = {
            'tcf_version': c.version,
            'created': c.created.isoformat(),
            'last_updated': c.last_updated.isoformat(),
            'cmp_id': c.cmp_id,
            'cmp_version': c.cmp_version,
            'consent_screen': c.consent_screen,
            'consent_language': c.consent_language,
            'vendor_list_version': c.vendor_list_version,
        }
        if isinstance(c, ConsentV2):
            metadata.update({
                'tcf_policy_version': c.policy_version,
                'publisher_cc': c.publisher_cc,
                'is_service_specific': c.is_specific_service,
                'purpose_one_treatment': c.purpose_one_treatment,
                'use_non_standard_stacks': c.use_non_standard_stacks,
            })
        if self.error_state:
            metadata['decode_error'] = self.error_state
        return metadata

    def get_consented_vendors(self, include_details: bool = True) -> list:
        """
        Vendors the user consented to, in ascending ID order.

        Args:
            include_details (bool): If True (default), returns GVL detail dictionaries.
                                    If False, returns the integer vendor IDs.

        Returns:
            list: Vendor IDs or vendor detail dictionaries. Empty on decode failure.
        """
        if not self._usable('consented vendors'):
            return []

        vendor_ids = self._consented_vendor_ids()
        if not include_details:
            return vendor_ids
        return [self._get_vendor_details(vid) for vid in vendor_ids]

    def get_cmp_details(self) -> dict:
        """
        Looks up the CMP that produced the string in the CMP list.

        Returns:
            dict: The CMP list entry as found in the file, or
                  {'id', 'name', 'error'} describing why the lookup failed.
        """
        if not self._usable('CMP details'):
            return {'error': self.error_state or "Consent not available."}

        cmp_id = self.consent.cmp_id
        if not cmp_id:
            return {'id': cmp_id, 'name': 'unknown (CMP ID not set)', 'error': 'CMP ID is 0'}
        if not self.cmp_list_dict:
            msg = "CMP list failed to load or is empty."
            return {'id': cmp_id, 'name': 'unknown (CMP list not loaded)', 'error': msg}

        cmp_details = self.cmp_list_dict.get(str(cmp_id))
        if cmp_details:
            return cmp_details
        msg = f"CMP ID {cmp_id} not found in the loaded CMP list data."
        self._say(f"  - {msg}")
        return {'id': cmp_id, 'name': 'unknown (Not found in CMP list)', 'error': msg}

    def get_vendors_using_legitimate_interest(self) -> dict:
        """
        Vendors for which legitimate interest was established (v2 only), with
        the LI purposes each declares in the GVL.

        Returns:
            dict: `{ vendor_id: {'name': str, 'declared_li_purposes': list[int]} }`
        """
        if not self._usable('LI vendors'):
            return {}
        if not isinstance(self.consent, ConsentV2):
            self._say("Warning: Legitimate interest is only encoded in TCF v2 strings.")
            return {}

        result = {}
        for vendor_id in self.consent.legit_consented_vendors:
            vendor_gvl_data = self._get_vendor_gvl_data(vendor_id)
            result[vendor_id] = {
                'name': vendor_gvl_data.get('name', 'unknown'),
                'declared_li_purposes': vendor_gvl_data.get('legIntPurposes', []),
            }
        return result

    def _get_consented_vendors_matching_gvl_list(self, gvl_list_key: str, required_ids: list, require_all: bool = False) -> dict:
        """
        Consented vendors whose GVL entry declares some (or all) of `required_ids`
        under `gvl_list_key`.

        Args:
            gvl_list_key (str): GVL list to inspect, e.g. 'purposes' or 'specialFeatures'.
            required_ids (list[int]): IDs to look for.
            require_all (bool): Require every ID instead of at least one.

        Returns:
            dict: `{ vendor_id: {'name': str, 'matched_ids': list[int]} }`
        """
        required = set(required_ids)
        if not required or not self._usable(f"vendors for '{gvl_list_key}'"):
            return {}

        matching = {}
        for vendor_id in self._consented_vendor_ids():
            vendor_gvl_data = self._get_vendor_gvl_data(vendor_id)
            matched = required.intersection(vendor_gvl_data.get(gvl_list_key, []))
            if not matched or (require_all and matched != required):
                continue
            matching[vendor_id] = {
                'name': vendor_gvl_data.get('name', 'unknown'),
                'matched_ids': sorted(matched),
            }
        return matching

    def get_consented_vendors_for_purposes(self, purpose_ids: list, require_all: bool = False) -> dict:
        """
        Consented vendors that declare the given purposes in the GVL.

        This does not check the purposes the user allowed; combine with
        `consent.every_purpose_allowed` for that.
        """
        return self._get_consented_vendors_matching_gvl_list('purposes', purpose_ids, require_all)

    def get_consented_vendors_for_special_features(self, feature_ids: list, require_all: bool = False) -> dict:
        return self._get_consented_vendors_matching_gvl_list('specialFeatures', feature_ids, require_all)

    def get_publisher_restrictions(self) -> list:
        """
        Publisher restrictions of a v2 string, in encoded order.

        Returns:
            list: `[{'purpose_id': int, 'restriction_type': str, 'vendors': list[int]}]`
        """
        if not self._usable('publisher restrictions') or not isinstance(self.consent, ConsentV2):
            return []
        return [
            {
                'purpose_id': r.purpose_id,
                'restriction_type': r.restriction_type.name,
                'vendors': sorted(r.restricted_vendors),
            }
            for r in self.consent.pub_restrictions
        ]

    def get_vendor_urls(self, vendor_id: int) -> dict:
        """
        Policy URL and device storage disclosure URL of a vendor, from the GVL.

        Returns:
            dict: 'policyUrl' and 'deviceStorageDisclosureUrl', empty strings when
                  unknown, plus 'error' if the GVL is missing or lacks the vendor.
        """
        if not self.gvl_vendors_dict:
            return {'policyUrl': '', 'deviceStorageDisclosureUrl': '', 'error': 'GVL not loaded or empty'}

        vendor_gvl_data = self._get_vendor_gvl_data(vendor_id)
        if not vendor_gvl_data:
            return {'policyUrl': '', 'deviceStorageDisclosureUrl': '', 'error': f'Vendor ID {vendor_id} not found in GVL'}
        return {
            'policyUrl': vendor_gvl_data.get('policyUrl', ''),
            'deviceStorageDisclosureUrl': vendor_gvl_data.get('deviceStorageDisclosureUrl', ''),
        }

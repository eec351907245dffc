# Compute Engine region id -> (city, ISO 3166 alpha-2 country code)
GCP_LOCATIONS: dict[str, tuple[str, str]] = {
    "africa-south1": ("Johannesburg", "ZA"),
    "asia-east1": ("Changhua County", "TW"),
    "asia-east2": ("Hong Kong", "HK"),
    "asia-northeast1": ("Tokyo", "JP"),
    "asia-northeast2": ("Osaka", "JP"),
    "asia-northeast3": ("Seoul", "KR"),
    "asia-south1": ("Mumbai", "IN"),
    "asia-south2": ("Delhi", "IN"),
    "asia-southeast1": ("Jurong West", "SG"),
    "asia-southeast2": ("Jakarta", "ID"),
    "australia-southeast1": ("Sydney", "AU"),
    "australia-southeast2": ("Melbourne", "AU"),
    "europe-central2": ("Warsaw", "PL"),
    "europe-north1": ("Hamina", "FI"),
    "europe-southwest1": ("Madrid", "ES"),
    "europe-west1": ("St. Ghislain", "BE"),
    "europe-west2": ("London", "GB"),
    "europe-west3": ("Frankfurt", "DE"),
    "europe-west4": ("Eemshaven", "NL"),
    "europe-west6": ("Zurich", "CH"),
    "europe-west8": ("Milan", "IT"),
    "europe-west9": ("Paris", "FR"),
    "europe-west10": ("Berlin", "DE"),
    "europe-west12": ("Turin", "IT"),
    "me-central1": ("Doha", "QA"),
    "me-central2": ("Dammam", "SA"),
    "me-west1": ("Tel Aviv", "IL"),
    "northamerica-northeast1": ("Montréal", "CA"),
    "northamerica-northeast2": ("Toronto", "CA"),
    "southamerica-east1": ("São Paulo", "BR"),
    "southamerica-west1": ("Santiago", "CL"),
    "us-central1": ("Iowa", "US"),
    "us-east1": ("South Carolina", "US"),
    "us-east4": ("Northern Virginia", "US"),
    "us-east5": ("Columbus", "US"),
    "us-south1": ("Dallas", "US"),
    "us-west1": ("Oregon", "US"),
    "us-west2": ("Los Angeles", "US"),
    "us-west3": ("Salt Lake City", "US"),
    "us-west4": ("Las Vegas", "US"),
}

"""Fixed metadata documents imported by the bootstrap protocol."""

PREFERENCES_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<preferences xmlns="http://www.demandware.com/xml/impex/preferences/2007-03-31">
    <custom-preferences>
        <development><preference preference-id="{preference_id}">0</preference></development>
    </custom-preferences>
</preferences>
"""


def _attribute(attribute_id: str, display_name: str, value_type: str) -> str:
    return f"""            <attribute-definition attribute-id="{attribute_id}">
                <display-name xml:lang="x-default">{display_name}</display-name>
                <type>{value_type}</type>
                <mandatory-flag>false</mandatory-flag>
                <externally-managed-flag>true</externally-managed-flag>
            </attribute-definition>
"""


_GROUP = """        <group-definitions>
            <attribute-group group-id="unitflow">
                <display-name xml:lang="x-default">unitflow</display-name>
                <attribute attribute-id="unitflowDataVersion"/>
                <attribute attribute-id="unitflowVars"/>
                <attribute attribute-id="unitflowMigrations"/>
                <attribute attribute-id="unitflowBootstrappedClientIDs"/>
                <attribute attribute-id="unitflowFeaturesVersion"/>
                <attribute attribute-id="unitflowFeaturesBootstrappedClientIDs"/>
            </attribute-group>
        </group-definitions>
"""

MIGRATIONS_METADATA = (
    """<?xml version="1.0" encoding="UTF-8"?>
<metadata xmlns="http://www.demandware.com/xml/impex/metadata/2006-10-31">
    <type-extension type-id="OrganizationPreferences">
        <custom-attribute-definitions>
"""
    + _attribute("unitflowDataVersion", "unitflow Metadata Version", "int")
    + _attribute("unitflowVars", "unitflow Instance Vars", "text")
    + _attribute("unitflowMigrations", "unitflow Applied Migrations", "text")
    + _attribute("unitflowBootstrappedClientIDs", "unitflow Bootstrapped Client IDs", "text")
    + """        </custom-attribute-definitions>
"""
    + _GROUP
    + """    </type-extension>
</metadata>
"""
)

FEATURES_METADATA = (
    """<?xml version="1.0" encoding="UTF-8"?>
<metadata xmlns="http://www.demandware.com/xml/impex/metadata/2006-10-31">
    <type-extension type-id="OrganizationPreferences">
        <custom-attribute-definitions>
"""
    + _attribute("unitflowFeaturesVersion", "unitflow Features Metadata Version", "int")
    + _attribute(
        "unitflowFeaturesBootstrappedClientIDs", "unitflow Features Bootstrapped Client IDs", "text"
    )
    + """        </custom-attribute-definitions>
"""
    + _GROUP
    + """    </type-extension>
    <custom-type type-id="UnitflowFeature">
        <display-name xml:lang="x-default">unitflow Feature</display-name>
        <staging-mode>no-staging</staging-mode>
        <storage-scope>organization</storage-scope>
        <key-definition attribute-id="name">
            <display-name xml:lang="x-default">Feature Name</display-name>
            <type>string</type>
            <min-length>0</min-length>
        </key-definition>
        <attribute-definitions>
"""
    + _attribute("vars", "Variables", "text")
    + _attribute("secretVars", "Secret Variables", "text")
    + """        </attribute-definitions>
    </custom-type>
</metadata>
"""
)
